import os
import sys

import pytest
from sqlalchemy import text

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from supplyhub import create_app
from supplyhub.extensions import db
from supplyhub.models import Item, ItemStatus, derive_item_status


@pytest.fixture
def app():
    app = create_app({"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:"})
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.mark.parametrize(
    "quantity, reorder_point, archived, expected",
    [
        (0, 5, False, ItemStatus.OUT_OF_STOCK),
        (3, 5, False, ItemStatus.FOR_REORDER),
        (5, 5, False, ItemStatus.FOR_REORDER),
        (10, 5, False, ItemStatus.AVAILABLE),
        (0, 5, True, ItemStatus.DISCONTINUED),
        (2, 5, True, ItemStatus.PHASED_OUT),
        (50, 5, True, ItemStatus.PHASED_OUT),
        (0, 0, False, ItemStatus.OUT_OF_STOCK),
    ],
)
def test_derive_item_status(quantity, reorder_point, archived, expected):
    assert derive_item_status(quantity, reorder_point, archived) == expected


def test_new_item_gets_status_from_inputs(app):
    item = Item(name="Bond paper", unit="ream", quantity=10, reorder_point=5)
    db.session.add(item)
    db.session.commit()

    assert item.status == ItemStatus.AVAILABLE


def test_item_without_stock_starts_out_of_stock(app):
    item = Item(name="Stapler", unit="pc")
    db.session.add(item)
    db.session.commit()

    assert item.quantity == 0
    assert item.status == ItemStatus.OUT_OF_STOCK


def test_status_follows_every_input_change(app):
    item = Item(name="Ballpen", unit="box", quantity=20, reorder_point=5)
    db.session.add(item)
    db.session.commit()

    item.quantity = 4
    assert item.status == ItemStatus.FOR_REORDER

    item.reorder_point = 2
    assert item.status == ItemStatus.AVAILABLE

    item.is_archived = True
    assert item.status == ItemStatus.PHASED_OUT

    item.quantity = 0
    assert item.status == ItemStatus.DISCONTINUED

    item.is_archived = False
    assert item.status == ItemStatus.OUT_OF_STOCK

    db.session.commit()
    stored = db.session.get(Item, item.id)
    assert stored.status == ItemStatus.OUT_OF_STOCK


def test_recompute_status_repairs_stale_rows(app):
    item = Item(name="Folder", unit="pc", quantity=8, reorder_point=2)
    db.session.add(item)
    db.session.commit()

    db.session.execute(
        text("UPDATE item SET status = :status WHERE id = :id"),
        {"status": ItemStatus.OUT_OF_STOCK, "id": item.id},
    )
    db.session.commit()

    stale = db.session.get(Item, item.id)
    assert stale.status == ItemStatus.OUT_OF_STOCK
    assert stale.recompute_status() == ItemStatus.AVAILABLE
