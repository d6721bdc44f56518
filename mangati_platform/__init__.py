"""Mangati - manga publishing and reading platform (backend + client SDK).

Core concepts:
- Principals hold one or more roles (Viewer, Writer, Admin) and authenticate
  with a signed bearer token.
- Writers publish series and chapters; chapters go through moderation
  (Pending -> Approved/Rejected) unless uploaded by an Admin.
- Chapter uploads by non-admins are gated by a subscription with a monthly
  upload quota.

See README for setup and usage.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
