from studio import create_app
from studio.commands import seed_database

app = create_app()

with app.app_context():
    seed_database()
    print("Database seeded successfully.")
