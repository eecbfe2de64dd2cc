"""supplierflow.integrations — external collaborator adapters.

Outbound calls to third-party services go through an adapter in this
package, never via bare `requests` calls in services or blueprints.

Current adapters:
  company_registry.CompanyRegistryGateway — Companies House company lookup
  document_store.LocalDocumentStore       — filesystem document storage
"""
