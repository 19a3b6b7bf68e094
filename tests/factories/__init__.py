"""Test data builders.

Available factories
-------------------
ApiArticleRecordFactory: search-API article record dict (GDELT field names)
build_article_html: realistic article page with full head metadata
build_paywalled_html: truncated teaser page carrying paywall markup
"""
