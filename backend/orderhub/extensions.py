# Overview: Flask extension instances for database, migrations and the result cache.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from .services.result_cache import ResultCache

db = SQLAlchemy()
migrate = Migrate()
result_cache = ResultCache()
