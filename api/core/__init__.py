"""
Shared, cross-cutting code for the CRM API.

`core/` should contain small building blocks that multiple features use
(DB wiring, settings, logging, outbound clients). Keep feature-specific SQL
and business logic in the corresponding feature package (e.g. `contacts/`).
"""
