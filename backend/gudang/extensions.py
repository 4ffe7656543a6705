# Overview: Shared Flask extensions: database, migrations, and the outbound email sender slot.

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()

# app.extensions key holding the EmailSender installed by create_app
EMAIL_SENDER_KEY = "gudang.email_sender"


def get_email_sender():
    """EmailSender of the current app (the Resend client, or a test double)."""
    return current_app.extensions[EMAIL_SENDER_KEY]
