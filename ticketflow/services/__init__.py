"""Service layer modules.

Import modules, not functions: ``from ticketflow.services import ticket_service``.
"""
