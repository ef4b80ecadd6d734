"""Operator tools: legacy migration and cleanup commands.

Marks `elearning.tools` as a package so the console scripts
`elearning-migrate` and `elearning-cleanup` resolve in installed environments.
"""
