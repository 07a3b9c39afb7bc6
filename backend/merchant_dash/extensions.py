# Overview: Flask extension instances shared by the models, the SQL remote store and the CLI.

from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
migrate = Migrate(compare_type=True)
