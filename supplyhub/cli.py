import click

from .extensions import db
from .models import Division, Item, Role, RoleName, Section, User


def register_commands(app):
    @app.cli.command("create-user")
    @click.argument("email")
    @click.argument("name")
    @click.option(
        "--role",
        type=click.Choice(RoleName.ALL),
        default=RoleName.USER,
        show_default=True,
    )
    @click.option("--division", type=click.Choice(Division.ALL), default=Division.MANAGEMENT)
    @click.option("--section", type=click.Choice(Section.ALL), default=Section.ADMINISTRATIVE)
    @click.password_option()
    def create_user(email, name, role, division, section, password) -> None:
        """Create an approved account with a single role."""
        email = email.strip().lower()
        if User.query.filter_by(email=email).first() is not None:
            raise click.ClickException(f"A user with email {email} already exists.")

        role_record = Role.query.filter_by(name=role).first()
        if role_record is None:
            raise click.ClickException(f"Role {role} is missing; start the app once to seed roles.")

        user = User(
            email=email,
            name=name,
            division=division,
            section=section,
            is_approved=True,
            roles=[role_record],
        )
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        click.echo(f"Created {role} {email}.")

    @app.cli.command("recompute-item-status")
    def recompute_item_status() -> None:
        """Rewrite every stored item status from its quantity, reorder point and archive flag."""
        changed = 0
        for item in Item.query.order_by(Item.id).all():
            previous = item.status
            if item.recompute_status() != previous:
                changed += 1
                click.echo(f"{item.name}: {previous} -> {item.status}")
        db.session.commit()
        click.echo(f"Updated {changed} item status value(s).")
