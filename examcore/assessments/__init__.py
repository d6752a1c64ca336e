"""
Assessments

Session lifecycle, answer recording, scoring, results and duplication.
"""
