"""
credbroker.sidecar

Credentials sidecar: logs in to Vault as the pod's ServiceAccount and serves
short-lived cloud credentials on a local endpoint.
"""

# Package marker.
