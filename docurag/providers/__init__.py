"""Concrete adapters for the interfaces in :mod:`docurag.interfaces`."""
