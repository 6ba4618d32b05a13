"""Billing rules: pricing, quotes, invoices, payments and the project summary.

Service functions take a BusinessContext, validate before writing, and
commit once on success. Failures raise BillingError subclasses.
"""
