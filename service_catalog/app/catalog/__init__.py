"""
Catalog domain package.

- models: request/response models and the listing query
- service: product operations, listing cache and upload pipeline
"""
