"""
Fetcher Package - ein Fetcher pro Retrieval-Tier plus FetchManager
"""
