"""
Company/role extraction for job posting pages.

Signals come from ATS API hints, JSON-LD JobPosting blocks, the ATS URL slug
and page headings; weak results can be escalated to a rendered page or an LLM.
"""

__version__ = "0.1.0"
