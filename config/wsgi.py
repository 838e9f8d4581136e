"""
WSGI config for ClinicDesk.

This module contains the WSGI application used by Django's development server
and any production WSGI deployments. It exposes a module-level variable named
``application``.
"""

import os
import sys
from pathlib import Path

from django.core.wsgi import get_wsgi_application

# This allows easy placement of apps within the interior
# clinicdesk directory.
BASE_DIR = Path(__file__).resolve(strict=True).parent.parent
sys.path.append(str(BASE_DIR / "clinicdesk"))
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.production")

application = get_wsgi_application()
