"""
Mirror Engine — Keep local bare mirrors fresh and push them onward.

This package owns the per-repository sync procedure, the git subprocess
runner, and the worker pool that runs many repositories at once.
"""
