from .health import bp as health_bp
from .payment_schedule import bp as payment_schedule_bp


def register_routes(app):
    prefix = app.config.get("API_PREFIX", "/api")
    for bp in (health_bp, payment_schedule_bp):
        app.register_blueprint(bp, url_prefix=prefix)
        app.logger.debug("Registered blueprint %s at %s", bp.name, prefix)
