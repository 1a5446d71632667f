"""Live session state: model, registry, resolver."""
