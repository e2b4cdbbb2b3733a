"""
ProfNet core: connection-graph-gated messaging for a professional network.
"""
