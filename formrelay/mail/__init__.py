"""Outbound notification mail: pooled SMTP transports, dispatcher, rendering."""
