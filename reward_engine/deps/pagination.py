from dataclasses import dataclass


@dataclass
class PageParams:
    page: int
    page_size: int


def get_page_params(page: int = 1, page_size: int = 10) -> PageParams:
    # clamp rather than reject
    page = max(1, page)
    page_size = max(1, min(page_size, 200))
    return PageParams(page=page, page_size=page_size)
