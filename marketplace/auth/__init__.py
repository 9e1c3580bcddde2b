"""Accounts, JWT tokens and QR code login sessions."""
