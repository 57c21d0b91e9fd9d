"""
Tickets Module
==============

Ticket creation and staff actions: acknowledge, set TAT, comment, close
and reopen.
"""
