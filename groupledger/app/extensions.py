"""
extensions.py — Flask extension singletons.

`db` and `ma` are created unbound and attached to an app by create_app()
through init_app(). Services, models and migrations import them from here,
which keeps the import graph free of cycles and lets every test build its
own app instance.
"""

from flask_marshmallow import Marshmallow
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Request schemas in app/schemas/ subclass marshmallow.Schema, not ma.Schema:
# ma.Schema needs an application context and tests/unit/ runs without one.
ma = Marshmallow()
