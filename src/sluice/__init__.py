"""
Sluice - fetch, cache and publish import pipelines.

- sluice.core: paths, content store, formats, fingerprints, errors, logging, settings
- sluice.destination: destination store contract and adapters
- sluice.framework: import lifecycle, schema manager, job registry
- sluice.jobs: built-in jobs
- sluice.cli: command line
"""

__version__ = "0.1.0"
