"""Intake package for formrelay.

Contains the spam checks, validation, persistence collaborators and the
orchestrating service for inbound form submissions.
"""
