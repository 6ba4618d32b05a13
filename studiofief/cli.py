import click
from flask import current_app

from . import db
from .billing.quotes import expire_overdue_quotes
from .models import (
    Business, BusinessMembership, BusinessRole, BusinessSettings,
    Client, Project, ProjectService, Service, User,
)

DEMO_OWNER_EMAIL = "owner@studiofief.local"
DEMO_OWNER_PASSWORD = "Owner@1234"

DEMO_SERVICES = [
    # code, name, default price, daily rate
    ("WEB-SITE", "Site vitrine", 350000, None),
    ("SEO-AUDIT", "Audit SEO", 90000, None),
    ("DEV-DAY", "Journée de développement", None, 55000),
    ("MAINT", "Maintenance mensuelle", 15000, None),
]


# =========================================================
# Seed demo
# =========================================================
def seed_demo():
    """Idempotent: a demo business with an owner, a catalog and one project."""
    owner = User.query.filter_by(email=DEMO_OWNER_EMAIL).first()
    if not owner:
        owner = User(email=DEMO_OWNER_EMAIL, name="Demo Owner", is_active=True)
        owner.set_password(DEMO_OWNER_PASSWORD)
        db.session.add(owner)
        db.session.flush()

    business = Business.query.filter_by(name="Studio Démo").first()
    if not business:
        business = Business(name="Studio Démo", currency="EUR")
        db.session.add(business)
        db.session.flush()
        db.session.add(BusinessSettings(
            business_id=business.id,
            default_deposit_percent=current_app.config.get("DEFAULT_DEPOSIT_PERCENT", 30),
            payment_terms_days=current_app.config.get("DEFAULT_PAYMENT_TERMS_DAYS", 30),
        ))

    if not BusinessMembership.query.filter_by(business_id=business.id, user_id=owner.id).first():
        db.session.add(BusinessMembership(business_id=business.id, user_id=owner.id, role=BusinessRole.OWNER))

    services = {}
    for code, name, price, tjm in DEMO_SERVICES:
        svc = Service.query.filter_by(business_id=business.id, code=code).first()
        if not svc:
            svc = Service(business_id=business.id, code=code, name=name,
                          default_price_cents=price, tjm_cents=tjm)
            db.session.add(svc)
            db.session.flush()
        services[code] = svc

    client = Client.query.filter_by(business_id=business.id, name="Boulangerie Martin").first()
    if not client:
        client = Client(business_id=business.id, name="Boulangerie Martin", email="contact@martin.local")
        db.session.add(client)
        db.session.flush()

    project = Project.query.filter_by(business_id=business.id, name="Refonte site").first()
    if not project:
        project = Project(business_id=business.id, client_id=client.id, name="Refonte site")
        db.session.add(project)
        db.session.flush()
        for pos, (code, qty) in enumerate([("WEB-SITE", 1), ("SEO-AUDIT", 1), ("DEV-DAY", 3)]):
            db.session.add(ProjectService(
                business_id=business.id,
                project_id=project.id,
                service_id=services[code].id,
                quantity=qty,
                position=pos,
            ))

    db.session.commit()
    return business, owner


# =========================================================
# Commands
# =========================================================
def register_cli(app):
    @app.cli.command("seed-demo")
    def seed_demo_cmd():
        business, owner = seed_demo()
        click.echo(f"✅ Demo business #{business.id} seeded.")
        click.echo(f"✅ Owner: {owner.email} / {DEMO_OWNER_PASSWORD}")

    @app.cli.command("expire-quotes")
    def expire_quotes_cmd():
        count = expire_overdue_quotes()
        current_app.logger.info("expired %s quote(s)", count)
        click.echo(f"✅ {count} quote(s) expired.")

    @app.cli.command("reset-db")
    @click.option("--yes", is_flag=True, help="Skip confirmation")
    def reset_db_cmd(yes):
        if not yes and not click.confirm("This will DROP and RECREATE tables. Continue?", default=False):
            click.echo("Cancelled.")
            return
        db.drop_all()
        db.create_all()
        click.echo("✅ Tables recreated.")
