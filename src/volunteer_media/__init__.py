"""
Volunteer Media

Volunteer management portal for animal shelters: user and group
administration, animal profiles, session notes, photo galleries,
protocol documents, and email/GroupMe notifications.
"""

__version__ = "1.0.0"
__author__ = "Volunteer Media Team"
__license__ = "MIT"
