"""Ticket lifecycle and Kanban board synchronization service."""
