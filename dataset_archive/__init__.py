"""
Dataset long-term-archive publication engine.

Publishing a dataset runs in two phases: a kick-off that validates the
request and locks the dataset (or starts a pre-archive workflow), and a
finalize phase that validates files, releases the version and fans out
notifications and index updates.
"""
