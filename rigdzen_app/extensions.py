# rigdzen_app/extensions.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import click
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from sqlalchemy import text


db = SQLAlchemy()
migrate = Migrate()

def init_extensions(app):
    # DB/Migrate
    db.init_app(app)
    migrate.init_app(app, db)

def register_cli(app):
    @app.cli.command("init-db")
    def init_db_cmd():
        """Create the tables (DEV). For production use flask db upgrade."""
        with app.app_context():
            # sanity check
            db.session.execute(text("SELECT 1"))
            db.create_all()
            print("Tables created.")

    @app.cli.command("ensure-admin")
    def ensure_admin_cmd():
        """Create or update the ADMIN_EMAIL user with the ADMIN role (idempotent)."""
        from .services.users import ensure_admin
        with app.app_context():
            action, user = ensure_admin(app.config.get("ADMIN_EMAIL"), app.config.get("ADMIN_NAME"))
            print(f"Admin {user.email}: {action}")

    @app.cli.command("upsert-users")
    @click.argument("csv_path", type=click.Path(exists=True, dir_okay=False))
    @click.option("--admin", "admins", multiple=True, help="Name of a user to promote to ADMIN.")
    def upsert_users_cmd(csv_path, admins):
        """Upsert users from a CSV with name,email columns."""
        from .services.users import upsert_users_from_csv
        with app.app_context():
            with open(csv_path, "rb") as fh:
                stats = upsert_users_from_csv(fh, admin_names=admins)
            print(f"created={stats['created']} updated={stats['updated']} skipped={stats['skipped']}")
