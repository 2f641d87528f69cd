"""
Stopwords dropped during keyword extraction.

Operators query the catalog in Spanish and English, so both lists apply to
every query.  Generic verbs such as "show" and "view" are included because
nearly every command description uses them.
"""

STOPWORDS_ES = frozenset({
    # Artículos
    "el", "la", "los", "las", "un", "una", "unos", "unas",
    # Preposiciones
    "a", "ante", "bajo", "con", "contra", "de", "desde", "durante", "en", "entre",
    "hacia", "hasta", "mediante", "para", "por", "según", "sin", "sobre", "tras",
    # Conjunciones
    "y", "e", "o", "u", "pero", "sino", "que", "si",
    # Pronombres
    "yo", "tú", "él", "ella", "nosotros", "vosotros", "ellos", "ellas",
    "me", "te", "se", "nos", "os", "lo", "le", "les",
    "mi", "tu", "su", "nuestro", "vuestro",
    # Verbos auxiliares
    "es", "está", "son", "están", "ser", "estar", "hay", "haber",
    # Interrogativos
    "cómo", "como", "qué", "cuál", "cuáles", "dónde", "donde",
    # Otros
    "del", "al", "ver", "hacer", "tiene", "tengo", "puede", "puedo",
})

STOPWORDS_EN = frozenset({
    # Articles
    "a", "an", "the",
    # Prepositions
    "in", "on", "at", "to", "for", "with", "from", "by", "about", "into",
    "through", "during", "before", "after", "above", "below", "between", "under",
    # Conjunctions
    "and", "or", "but", "if", "because", "as", "until", "while",
    # Pronouns
    "i", "you", "he", "she", "it", "we", "they", "me", "him", "her", "us", "them",
    "my", "your", "his", "its", "our", "their",
    # Auxiliary verbs
    "is", "are", "was", "were", "be", "been", "being", "have", "has", "had",
    "do", "does", "did", "can", "could", "will", "would", "should",
    # Interrogatives
    "what", "where", "when", "why", "how", "which", "who",
    # Others
    "this", "that", "these", "those", "there", "here", "of", "up", "down", "out",
    "show", "get", "see", "view",
})

STOPWORDS = STOPWORDS_ES | STOPWORDS_EN
