"""
Results

Finalization and result aggregation.
"""

from examcore.assessments.results.aggregator import ResultAggregator, category_breakdown

__all__ = ['ResultAggregator', 'category_breakdown']
