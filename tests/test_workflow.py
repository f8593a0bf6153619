import os
import sys
import threading

import pytest
from sqlalchemy import text

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from supplyhub import create_app
from supplyhub.errors import (
    InsufficientStock,
    InvalidState,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from supplyhub.extensions import db
from supplyhub.models import (
    Division,
    Item,
    ItemStatus,
    RequestStatus,
    Role,
    Section,
    SupplyRequest,
    User,
)
from supplyhub.security import Actor
from supplyhub.services import workflow
from supplyhub.services.workflow import RequestLine


@pytest.fixture
def app():
    app = create_app({"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:"})
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


def create_user(email, name, role_name="user"):
    user = User(
        email=email,
        name=name,
        division=Division.RECRUITMENT,
        section=Section.APPOINTMENT,
        is_approved=True,
    )
    user.set_password("password")
    user.roles = [Role.query.filter_by(name=role_name).one()]
    db.session.add(user)
    db.session.commit()
    return user


def create_item(name, quantity, reorder_point=5, unit="pc"):
    item = Item(name=name, quantity=quantity, reorder_point=reorder_point, unit=unit)
    db.session.add(item)
    db.session.commit()
    return item


@pytest.fixture
def people(app):
    requester = create_user("requester@example.com", "Rita Requester")
    approver = create_user("approver@example.com", "Andy Approver", "approver")
    other_approver = create_user("second@example.com", "Sam Second", "approver")
    return {
        "requester": requester,
        "requester_actor": Actor.from_user(requester),
        "approver_actor": Actor.from_user(approver),
        "other_approver_actor": Actor.from_user(other_approver),
    }


def submit(requester, lines, is_supply_in=False):
    return workflow.submit_request(
        requester,
        [RequestLine(item_id=item.id, quantity=quantity) for item, quantity in lines],
        is_supply_in=is_supply_in,
    ).id


def test_submit_creates_pending_request_with_requester_profile(app, people):
    paper = create_item("Bond paper", 10)

    request_id = submit(people["requester"], [(paper, 3)])

    stored = db.session.get(SupplyRequest, request_id)
    assert stored.status == RequestStatus.PENDING
    assert stored.user_email == "requester@example.com"
    assert stored.division == Division.RECRUITMENT
    assert stored.section == Section.APPOINTMENT
    assert [(line.item_id, line.quantity) for line in stored.items] == [(paper.id, 3)]
    assert stored.is_received is False


def test_submit_requires_complete_profile(app):
    user = User(email="partial@example.com", is_approved=True)
    user.set_password("password")
    db.session.add(user)
    db.session.commit()
    paper = create_item("Bond paper", 10)

    with pytest.raises(ValidationError, match="Incomplete user profile"):
        submit(user, [(paper, 1)])


def test_submit_rejects_unknown_item(app, people):
    with pytest.raises(NotFound):
        workflow.submit_request(
            people["requester"], [RequestLine(item_id=999, quantity=1)], is_supply_in=False
        )


def test_approve_supply_out_decrements_stock_and_recomputes_status(app, people):
    paper = create_item("Bond paper", 10, reorder_point=5)
    toner = create_item("Toner", 4, reorder_point=1)
    request_id = submit(people["requester"], [(paper, 7), (toner, 4)])

    result = workflow.decide(request_id, "APPROVE", people["approver_actor"])

    assert result.status == RequestStatus.APPROVED
    assert result.approver == "Andy Approver"

    paper = db.session.get(Item, paper.id)
    toner = db.session.get(Item, toner.id)
    assert paper.quantity == 3
    assert paper.status == ItemStatus.FOR_REORDER
    assert toner.quantity == 0
    assert toner.status == ItemStatus.OUT_OF_STOCK

    stored = db.session.get(SupplyRequest, request_id)
    assert stored.status == RequestStatus.APPROVED
    assert stored.approver_name == "Andy Approver"
    assert stored.approver_id == people["approver_actor"].id


def test_approve_supply_in_increments_stock(app, people):
    paper = create_item("Bond paper", 0, reorder_point=5)
    request_id = submit(people["requester"], [(paper, 20)], is_supply_in=True)

    workflow.decide(request_id, "approve", people["approver_actor"])

    paper = db.session.get(Item, paper.id)
    assert paper.quantity == 20
    assert paper.status == ItemStatus.AVAILABLE


def test_insufficient_stock_aborts_whole_approval(app, people):
    paper = create_item("Bond paper", 10)
    toner = create_item("Toner", 2)
    ink = create_item("Ink", 1)
    request_id = submit(people["requester"], [(paper, 5), (toner, 3), (ink, 4)])

    with pytest.raises(InsufficientStock) as excinfo:
        workflow.decide(request_id, "APPROVE", people["approver_actor"])

    shortages = excinfo.value.shortages
    assert {entry["name"] for entry in shortages} == {"Toner", "Ink"}
    assert {"item_id": toner.id, "name": "Toner", "requested": 3, "available": 2} in shortages
    assert excinfo.value.message.startswith("Insufficient quantities for multiple items:")

    assert db.session.get(Item, paper.id).quantity == 10
    assert db.session.get(Item, toner.id).quantity == 2
    assert db.session.get(Item, ink.id).quantity == 1
    stored = db.session.get(SupplyRequest, request_id)
    assert stored.status == RequestStatus.PENDING
    assert stored.approver_name is None


def test_single_shortage_message_names_item(app, people):
    toner = create_item("Toner", 2)
    request_id = submit(people["requester"], [(toner, 3)])

    with pytest.raises(InsufficientStock) as excinfo:
        workflow.decide(request_id, "APPROVE", people["approver_actor"])

    assert excinfo.value.message == 'Insufficient quantity for "Toner". Requested: 3, Available: 2'


def test_duplicate_lines_are_checked_against_combined_quantity(app, people):
    toner = create_item("Toner", 5)
    request_id = submit(people["requester"], [(toner, 3), (toner, 3)])

    with pytest.raises(InsufficientStock) as excinfo:
        workflow.decide(request_id, "APPROVE", people["approver_actor"])

    assert excinfo.value.shortages == [
        {"item_id": toner.id, "name": "Toner", "requested": 6, "available": 5}
    ]


def test_reject_leaves_stock_untouched(app, people):
    paper = create_item("Bond paper", 1)
    request_id = submit(people["requester"], [(paper, 50)])

    result = workflow.decide(request_id, "REJECT", people["approver_actor"])

    assert result.status == RequestStatus.REJECTED
    assert db.session.get(Item, paper.id).quantity == 1
    assert db.session.get(SupplyRequest, request_id).approver_name == "Andy Approver"


def test_deciding_twice_fails_with_invalid_state(app, people):
    paper = create_item("Bond paper", 10)
    request_id = submit(people["requester"], [(paper, 4)])

    workflow.decide(request_id, "APPROVE", people["approver_actor"])
    with pytest.raises(InvalidState, match="already been approved by another approver"):
        workflow.decide(request_id, "APPROVE", people["other_approver_actor"])

    assert db.session.get(Item, paper.id).quantity == 6
    stored = db.session.get(SupplyRequest, request_id)
    assert stored.status == RequestStatus.APPROVED
    assert stored.approver_name == "Andy Approver"


def test_rejected_request_cannot_be_approved(app, people):
    paper = create_item("Bond paper", 10)
    request_id = submit(people["requester"], [(paper, 4)])
    workflow.decide(request_id, "REJECT", people["approver_actor"])

    with pytest.raises(InvalidState):
        workflow.decide(request_id, "APPROVE", people["approver_actor"])

    assert db.session.get(Item, paper.id).quantity == 10


def test_concurrent_decision_loses_conditional_update(app, people):
    paper = create_item("Bond paper", 10)
    request_id = submit(people["requester"], [(paper, 4)])

    # Load the request so the session holds it as PENDING, then let another
    # writer decide it behind the session's back.
    assert db.session.get(SupplyRequest, request_id).status == RequestStatus.PENDING
    db.session.execute(
        text("UPDATE supply_request SET status = 'REJECTED' WHERE id = :id"),
        {"id": request_id},
    )

    with pytest.raises(InvalidState):
        workflow.decide(request_id, "APPROVE", people["approver_actor"])

    assert db.session.get(Item, paper.id).quantity == 10


@pytest.fixture
def file_app(tmp_path):
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'race.db'}",
            "SQLALCHEMY_ENGINE_OPTIONS": {
                "connect_args": {"check_same_thread": False, "timeout": 30}
            },
        }
    )
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def test_two_approvers_racing_on_one_request(file_app):
    with file_app.app_context():
        requester = create_user("requester@example.com", "Rita Requester")
        approvers = [
            Actor.from_user(create_user("approver@example.com", "Andy Approver", "approver")),
            Actor.from_user(create_user("second@example.com", "Sam Second", "approver")),
        ]
        paper = create_item("Bond paper", 10)
        paper_id = paper.id
        request_id = submit(requester, [(paper, 4)])

    barrier = threading.Barrier(len(approvers))
    outcomes = []

    def approve(actor):
        with file_app.app_context():
            barrier.wait()
            try:
                workflow.decide(request_id, "APPROVE", actor)
            except InvalidState:
                outcomes.append("stale")
            except Exception as exc:
                outcomes.append(repr(exc))
            else:
                outcomes.append("ok")

    threads = [threading.Thread(target=approve, args=(actor,)) for actor in approvers]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert sorted(outcomes) == ["ok", "stale"]
    with file_app.app_context():
        assert db.session.get(Item, paper_id).quantity == 6
        stored = db.session.get(SupplyRequest, request_id)
        assert stored.status == RequestStatus.APPROVED
        assert stored.approver_name in {"Andy Approver", "Sam Second"}


def test_submit_rejects_quantities_beyond_integer_range(app, people):
    paper = create_item("Bond paper", 10)

    with pytest.raises(ValidationError):
        submit(people["requester"], [(paper, 2**31)])

    assert SupplyRequest.query.count() == 0


def test_supply_in_approval_rejects_stock_beyond_integer_range(app, people):
    staples = create_item("Staples", 2**31 - 3)
    request_id = submit(people["requester"], [(staples, 5)], is_supply_in=True)

    with pytest.raises(ValidationError) as excinfo:
        workflow.decide(request_id, "APPROVE", people["approver_actor"])

    assert excinfo.value.details == ["Staples would exceed the maximum stock of 2147483647."]
    assert db.session.get(Item, staples.id).quantity == 2**31 - 3
    assert db.session.get(SupplyRequest, request_id).status == RequestStatus.PENDING


def test_decide_validates_action_and_role(app, people):
    paper = create_item("Bond paper", 10)
    request_id = submit(people["requester"], [(paper, 1)])

    with pytest.raises(ValidationError):
        workflow.decide(request_id, "MAYBE", people["approver_actor"])
    for action in (1, None, ["APPROVE"]):
        with pytest.raises(ValidationError):
            workflow.decide(request_id, action, people["approver_actor"])
    with pytest.raises(PermissionDenied):
        workflow.decide(request_id, "APPROVE", people["requester_actor"])
    with pytest.raises(NotFound):
        workflow.decide(12345, "APPROVE", people["approver_actor"])

    assert db.session.get(SupplyRequest, request_id).status == RequestStatus.PENDING


def test_supply_out_receipt_only_by_requester(app, people):
    paper = create_item("Bond paper", 10)
    request_id = submit(people["requester"], [(paper, 2)])
    workflow.decide(request_id, "APPROVE", people["approver_actor"])

    with pytest.raises(PermissionDenied, match="person who made the request"):
        workflow.mark_received(request_id, people["approver_actor"])
    assert db.session.get(SupplyRequest, request_id).is_received is False

    result = workflow.mark_received(request_id, people["requester_actor"])
    assert result.is_received is True
    assert db.session.get(SupplyRequest, request_id).is_received is True


def test_supply_in_receipt_only_by_approver(app, people):
    paper = create_item("Bond paper", 10)
    request_id = submit(people["requester"], [(paper, 2)], is_supply_in=True)
    workflow.decide(request_id, "APPROVE", people["approver_actor"])

    with pytest.raises(PermissionDenied, match="approver of this request"):
        workflow.mark_received(request_id, people["requester_actor"])
    with pytest.raises(PermissionDenied):
        workflow.mark_received(request_id, people["other_approver_actor"])

    workflow.mark_received(request_id, people["approver_actor"])
    assert db.session.get(SupplyRequest, request_id).is_received is True


def test_receipt_requires_approval(app, people):
    paper = create_item("Bond paper", 10)
    pending_id = submit(people["requester"], [(paper, 2)])
    rejected_id = submit(people["requester"], [(paper, 2)])
    workflow.decide(rejected_id, "REJECT", people["approver_actor"])

    with pytest.raises(InvalidState, match="Only approved requests"):
        workflow.mark_received(pending_id, people["requester_actor"])
    with pytest.raises(InvalidState):
        workflow.mark_received(rejected_id, people["requester_actor"])


def test_marking_received_twice_is_a_no_op(app, people):
    paper = create_item("Bond paper", 10)
    request_id = submit(people["requester"], [(paper, 2)])
    workflow.decide(request_id, "APPROVE", people["approver_actor"])

    workflow.mark_received(request_id, people["requester_actor"])
    result = workflow.mark_received(request_id, people["requester_actor"])

    assert result.to_dict() == {"id": request_id, "is_received": True}
    assert db.session.get(Item, paper.id).quantity == 8
