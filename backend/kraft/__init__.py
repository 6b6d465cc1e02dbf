"""Kraft control plane: instance registry, lifecycle, commands, snapshots and metrics."""
