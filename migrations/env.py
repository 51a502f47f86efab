import logging
from logging.config import fileConfig

from flask import current_app

from alembic import context

config = context.config

fileConfig(config.config_file_name)
logger = logging.getLogger('alembic.env')

# Constraint created by hand in b8d2e3f4a5c6; autogenerate must not drop it
EXCLUSION_CONSTRAINTS = {'ex_booking_no_overlap'}


def get_engine():
    return current_app.extensions['migrate'].db.engine


def get_engine_url():
    return get_engine().url.render_as_string(hide_password=False).replace('%', '%%')


config.set_main_option('sqlalchemy.url', get_engine_url())
target_db = current_app.extensions['migrate'].db


def include_object(object, name, type_, reflected, compare_to):
    if type_ == 'constraint' and name in EXCLUSION_CONSTRAINTS:
        return False
    return True


def configure_args(url):
    """Options shared by offline and online runs for the booking schema."""
    is_sqlite = url.startswith('sqlite')
    return {
        'target_metadata': target_db.metadata,
        'include_object': include_object,
        'compare_type': True,
        # SQLite can't ALTER constraints, so rebuild tables instead
        'render_as_batch': is_sqlite,
    }


def run_migrations_offline():
    url = config.get_main_option("sqlalchemy.url")
    context.configure(url=url, literal_binds=True, **configure_args(url))

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    def process_revision_directives(context, revision, directives):
        if getattr(config.cmd_opts, 'autogenerate', False):
            script = directives[0]
            if script.upgrade_ops.is_empty():
                directives[:] = []
                logger.info('No changes in booking schema detected.')

    conf_args = dict(current_app.extensions['migrate'].configure_args)
    conf_args.setdefault("process_revision_directives", process_revision_directives)

    connectable = get_engine()
    logger.info(f"Running migrations against {connectable.url.get_backend_name()}")

    with connectable.connect() as connection:
        options = configure_args(connectable.url.render_as_string())
        options.update(conf_args)
        context.configure(connection=connection, **options)

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
