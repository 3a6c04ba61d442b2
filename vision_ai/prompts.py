# Every key named here is read back by vision_ai.validator.
ANALYSIS_FIELDS = (
    "title",
    "author",
    "genre",
    "reading_level",
    "maturity_level",
    "is_movie",
    "future_recommendations",
    "analysis_summary",
)

RECOMMENDATION_COUNT = 3


def build_prompt(preferred_genre: str, grade_level: str) -> str:
    """
    Instructions sent next to the cover image.

    The grade and genre are embedded verbatim so the model can personalize
    the summary.
    """

    return f"""
You are looking at a photo of a real book cover.

Analyze this book cover image. Provide the following details in JSON format:
- title: The title of the book.
- author: The author of the book.
- genre: The main genre.
- reading_level: Suggested reading level in AR (Accelerated Reader) format if applicable PLUS ALWAYS the grade level (e.g. "4.5 (4th Grade)").
- maturity_level: Maturity rating (e.g. G, PG, PG-13, R) and brief reason.
- is_movie: Boolean, true if it has been adapted into a movie.
- future_recommendations: A list of {RECOMMENDATION_COUNT} similar books with "title", "author", and "reason" for each.
- analysis_summary: A 2-sentence summary.
  First sentence: Evaluate if this book is appropriate for a student in grade {grade_level}.
  Second sentence: Mention how well it fits their favorite genre ({preferred_genre}).

Rules:
- Return ONLY one JSON object with exactly these keys: {", ".join(ANALYSIS_FIELDS)}
- Focus on the biggest title text, ignore stickers and price tags
- Guess intelligently if the cover is partially visible
"""
