"""ACL table model, reference lookup, validation and the merge engine."""
