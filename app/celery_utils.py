from celery import Celery, Task
from flask import has_app_context


def celery_init_app(app):
    """Bind a Celery instance to the Flask app so tasks run inside its app context."""

    class FlaskTask(Task):
        def __call__(self, *args, **kwargs):
            # Eager tasks (tests) already run inside the caller's context
            if has_app_context():
                return self.run(*args, **kwargs)
            with app.app_context():
                return self.run(*args, **kwargs)

    celery_app = Celery(app.name, task_cls=FlaskTask)
    celery_app.config_from_object(app.config['CELERY'])
    celery_app.conf.timezone = app.config['BUSINESS_TIMEZONE']
    celery_app.set_default()
    app.extensions['celery'] = celery_app
    return celery_app
