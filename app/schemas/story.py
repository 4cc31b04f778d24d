# Generation states that count as a delivered story
COUNTED_GENERATION_STATUSES = ("complete", "text_complete")
