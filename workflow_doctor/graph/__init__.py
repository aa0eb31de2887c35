"""Flow-graph model, port policy, connectivity, validation and repair."""
