"""
Phase Window Engine
Blueprint registry.
"""


def register_blueprints(app):
    from phasegate.blueprints.health_bp import health_bp
    from phasegate.blueprints.phase_actions_bp import phase_actions_bp
    from phasegate.blueprints.window_bp import window_bp

    app.register_blueprint(window_bp)
    app.register_blueprint(phase_actions_bp)
    app.register_blueprint(health_bp)
