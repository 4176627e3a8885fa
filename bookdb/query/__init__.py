"""
Query language implementation: filters, projections, sorts, updates,
aggregation pipelines, indexes and cursors.
"""
