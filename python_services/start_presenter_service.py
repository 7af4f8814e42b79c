#!/usr/bin/env python3
"""
Startup script for the Presenter Relay service.
Runs the Qt GUI loop on the main thread and the Control API on a background thread.
"""

import logging
import signal
import sys
import threading
from pathlib import Path

# Make `shared` and `presenter` importable when run from anywhere
sys.path.insert(0, str(Path(__file__).resolve().parent))

from shared import __version__
from shared.config import configure_logging, get_settings

logger = logging.getLogger("presenter_relay")


def check_environment():
    """Check if the environment is properly set up."""
    print("🔍 Checking environment...")

    if not hasattr(sys, 'real_prefix') and not (hasattr(sys, 'base_prefix') and sys.base_prefix != sys.prefix):
        print("⚠️  Warning: Not running in a virtual environment")

    settings = get_settings()
    try:
        settings.data_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        print(f"❌ Data directory {settings.data_dir} is not writable: {e}")
        return False
    return True


def check_dependencies():
    """Check if required dependencies are installed."""
    print("📦 Checking dependencies...")

    try:
        import fastapi  # noqa: F401
        import uvicorn  # noqa: F401
        import httpx  # noqa: F401
        import sqlitedict  # noqa: F401
        from PySide6 import QtWebEngineWidgets  # noqa: F401
        print("✅ All dependencies are installed")
        return True
    except ImportError as e:
        print(f"❌ Missing dependency: {e}")
        print("   Run: pip install -e .")
        return False


def start_service():
    """Start the GUI loop and the Control API."""
    import uvicorn
    from PySide6.QtCore import QTimer
    from PySide6.QtWidgets import QApplication

    from presenter.preferences import PreferencesStore
    from presenter.qt_backend import QtDispatcher, QtScheduler, QtWindowBackend
    from presenter.server import build_services, create_app

    settings = get_settings()
    configure_logging()

    app = QApplication(sys.argv)
    # No main window: closing the presentation must not end the process
    app.setQuitOnLastWindowClosed(False)
    signal.signal(signal.SIGINT, lambda *_: app.quit())
    # Wake the interpreter periodically so Ctrl+C is noticed inside the Qt loop
    heartbeat = QTimer()
    heartbeat.timeout.connect(lambda: None)
    heartbeat.start(250)

    preferences = PreferencesStore(settings.preferences_path)
    prefs = preferences.load()
    port = settings.api_port or prefs.api_port

    backend = QtWindowBackend(settings.profile_dir, app)
    services = build_services(
        backend,
        QtScheduler(app),
        QtDispatcher(),
        preferences,
        service_name=settings.service_name,
        version=__version__,
        build_number=settings.build_number,
    )

    server = uvicorn.Server(
        uvicorn.Config(
            create_app(services),
            host=settings.api_host,
            port=port,
            log_level=settings.effective_log_level().lower(),
        )
    )
    # Signals belong to the Qt main thread
    server.install_signal_handlers = lambda: None
    api_thread = threading.Thread(target=server.run, name="control-api", daemon=True)

    print("\n" + "=" * 50)
    print("🎯 Control API starting at:")
    print(f"   http://localhost:{port}")
    print(f"   Health check: http://localhost:{port}/health")
    print(f"   Mode: {prefs.mode.value}")
    print("=" * 50 + "\n")

    api_thread.start()
    try:
        code = app.exec()
    except KeyboardInterrupt:
        code = 0
    finally:
        logger.info("Shutting down Presenter Relay")
        server.should_exit = True
        backend.close_all()
        api_thread.join(timeout=5)
    return code


def main():
    """Main startup function."""
    print("🌟 Presenter Relay Startup")
    print("=" * 50)

    if not check_environment():
        print("❌ Environment check failed!")
        return 1

    if not check_dependencies():
        print("❌ Dependency check failed!")
        return 1

    return start_service()


if __name__ == "__main__":
    sys.exit(main())
