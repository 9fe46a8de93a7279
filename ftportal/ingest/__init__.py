"""
Listing crawl and detail-page fetching for the Funding & Tenders portal.
"""
