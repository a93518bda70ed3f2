"""Clinic application of the portal backend.

This package contains models, serializers, services, views and route
registrations for the multi-clinic booking and analytics API.
"""
