"""Question quality evaluation engine.

Deterministic analyzers (readability, rule violations, structural checks),
embedding-based analyzers (variable relevance, duplicate similarity) and the
LLM judge, combined by ``evaluator.evaluate_questions`` into one
EvaluationRecord per question.

Key components:
- embeddings / similarity: sentence-embedding provider and cosine matrices
- linguistics: Flesch readability and wording rules
- structural: response options, skip logic, scale consistency
- judge: batch rubric scoring through the JSON model caller
- feedback: regeneration feedback text from evaluation records
"""
