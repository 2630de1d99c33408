"""Smoke test that the application module imports and builds."""


def test_import_app():
    """Test that we can import the app module."""
    from ferryops.main import create_app
    app = create_app()
    assert app is not None
