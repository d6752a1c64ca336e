"""
Duplication

Clone-title computation and definition cloning with optimistic retry.
"""

from examcore.assessments.duplication.namer import next_unique_title, root_title
from examcore.assessments.duplication.duplicator import DefinitionDuplicator, build_clone

__all__ = ['next_unique_title', 'root_title', 'DefinitionDuplicator', 'build_clone']
