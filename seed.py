from studiofief import create_app, db
from studiofief.cli import DEMO_OWNER_PASSWORD, seed_demo

app = create_app()


with app.app_context():
    db.create_all()
    business, owner = seed_demo()

    print("✅ Seed completed.")
    print(f"✅ Business #{business.id}: {business.name}")
    print(f"✅ Owner: {owner.email} / {DEMO_OWNER_PASSWORD}")
