"""
API server package: HTTP interface to the persona pipeline.

Exposes wallet analysis, persona scoring and population queries; delegates
to the analytics pipeline and the wallet store.
"""
