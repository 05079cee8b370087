"""
Feed Relay - Poll syndication feeds and relay new items to chat channels.

A Python application that watches RSS/Atom feeds subscribed to by chat
groups and delivers every new item exactly once to each subscribed channel.
"""

__version__ = "1.0.0"
__author__ = "Grégoire Compagnon"
__email__ = "obeone@obeone.org"
