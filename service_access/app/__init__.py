"""
Access service package for the Members Access Layer.

This package grants access to digital products after a payment event and
answers "what can this user see" queries. It provides:

- app.main: API surface for the payment webhook, access checks and the
  per-user catalog view.
- app.catalog: Product and media models, plan matching, gallery assembly.
- app.grants: Access-grant model and the idempotency guard.
- app.ingest: Payment webhook normalization and ingestion.
- app.query: Access checks and catalog reconciliation.
- app.persistence: Catalog and grant stores (PostgreSQL, in-memory).

Guidelines:
- The service is stateless; catalog and grants live in injected stores.
- A repeated payment notification must never produce a second active grant.
- Grants are evidence of payment and are never deleted.
"""
