# Overview: Shared SQLAlchemy and Alembic handles for the quotation service.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()

# SQLite is the default database; autogenerated revisions must use batch ALTERs
migrate = Migrate(render_as_batch=True)
