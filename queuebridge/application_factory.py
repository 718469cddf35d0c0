"""App factory and runtime wiring entrypoint."""


def create_app(config_path=None, *, environ=None, storage=None, world=None):
    """Return a Flask app for WSGI servers and tests."""
    from queuebridge.main import build_app, load_config

    app, _state = build_app(load_config(config_path, environ), storage=storage, world=world)
    return app
