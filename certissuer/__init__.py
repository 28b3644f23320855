"""
CertIssuer — Verifiable Certificate Issuance

Institution-side review of student credential requests and publication of
certificate documents to a content-addressed store.
"""

__version__ = "0.1.0"
