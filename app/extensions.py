from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_mail import Mail
from sqlalchemy import event

db = SQLAlchemy()
migrate = Migrate()
mail = Mail()


def serialise_sqlite_writers(engine):
    """
    Start every SQLite transaction with BEGIN IMMEDIATE.

    SQLite ignores SELECT ... FOR UPDATE, so the overlap check and the insert
    are only atomic across processes if the write lock is taken before the
    check runs. Other databases are left alone.
    """
    if engine.dialect.name != 'sqlite':
        return False

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Stop pysqlite from issuing its own deferred BEGIN
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return True
