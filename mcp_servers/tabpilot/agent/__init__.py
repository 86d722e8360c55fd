"""Agent process: connection to the bridge, command dispatch, tab tools."""
