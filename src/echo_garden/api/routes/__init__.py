"""Route modules mounted by ``echo_garden.api.main.create_app``."""
