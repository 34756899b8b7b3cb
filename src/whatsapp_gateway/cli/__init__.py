"""
WhatsApp Gateway CLI.
"""
