"""Application services.

Services implement the release pipeline, coordinating between the core
types (core/) and infrastructure (platform/).
"""
