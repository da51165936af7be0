"""
runserver with the listening port taken from the PORT environment variable.

Usage:
    PORT=8080 ./manage.py runserver
"""

from django.conf import settings
from django.core.management.commands.runserver import Command as RunserverCommand


class Command(RunserverCommand):
    default_port = str(settings.PORT)
