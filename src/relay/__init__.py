"""Registry webhook relay.

Receives image push notifications from DockerHub and Google Container
Registry, validates them against provider-specific authenticity rules,
and triggers a Jenkins job for each accepted push.
"""
