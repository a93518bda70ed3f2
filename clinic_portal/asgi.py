"""
ASGI config for the clinic portal project.

Only HTTP is served; every request runs its own request-scoped handler.
"""
import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "clinic_portal.settings")

from django.core.asgi import get_asgi_application  # noqa: E402

application = get_asgi_application()
