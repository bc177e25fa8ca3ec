"""Link processor for Confluence page links, attachment references, URLs and mentions."""

import logging
from typing import TYPE_CHECKING, Optional

from bs4 import BeautifulSoup, Tag

from converters.html_cleaner import replace_with_text

if TYPE_CHECKING:
    from converters.storage_converter import ConversionContext

logger = logging.getLogger('confluence_space_importer.converters.linkprocessor')

PAGE_REF_PREFIX = 'page-ref:'
ATTACHMENT_REF_PREFIX = 'attachment-ref:'

LINK_TAG = 'ac:link'
IMAGE_TAG = 'ac:image'


def link_text(link: Tag, fallback: str) -> str:
    """Visible text of an ac:link: link body, then plain-text body, then fallback."""
    for body_name in ('ac:link-body', 'ac:plain-text-link-body'):
        body = link.find(body_name, recursive=False)
        if body is not None:
            text = body.get_text()
            if text:
                return text
    return fallback


def copy_dimensions(image: Tag, img: Tag) -> None:
    for dimension in ('width', 'height'):
        value = image.get(f'ac:{dimension}')
        if value:
            img[dimension] = value


class LinkProcessor:
    """Rewrites ``ac:link``/``ac:image`` elements into plain anchors and images."""

    def __init__(self, logger: logging.Logger = None):
        """Initialize link processor with optional logger."""
        self.logger = logger or logging.getLogger('confluence_space_importer.converters.linkprocessor')

    def convert_page_links(self, soup: BeautifulSoup, ctx: 'ConversionContext') -> None:
        """
        Turn links to other pages into ``page-ref:`` placeholder anchors.

        The target is addressed by title since new ids do not exist yet; the
        reference resolver swaps titles for ids later.
        """
        for link in soup.find_all(LINK_TAG):
            # ri:page nested in ri:attachment addresses another page's attachment
            page_ref = link.find('ri:page', recursive=False)
            if page_ref is None:
                continue

            title = (page_ref.get('ri:content-title') or '').strip()
            if not title:
                # Same-page anchor links carry no page title
                replace_with_text(link, link_text(link, ''))
                ctx.count('links_degraded')
                continue

            anchor = soup.new_tag('a', href=f'{PAGE_REF_PREFIX}{title}')
            anchor.string = link_text(link, title)
            link.replace_with(anchor)

            if title in ctx.title_to_id:
                ctx.count('links_internal')
            else:
                ctx.count('links_unknown_title')

    def convert_attachments(self, soup: BeautifulSoup, ctx: 'ConversionContext') -> None:
        """Attachment links, embedded attachment images and bare attachment references."""
        for link in soup.find_all(LINK_TAG):
            attachment = link.find('ri:attachment')
            if attachment is None:
                continue

            file_name = attachment.get('ri:filename') or ''
            link.replace_with(self._attachment_anchor(soup, file_name, link_text(link, file_name)))
            ctx.count('attachment_links')

        for image in soup.find_all(IMAGE_TAG):
            attachment = image.find('ri:attachment')
            if attachment is None:
                continue

            file_name = attachment.get('ri:filename') or ''
            img = soup.new_tag('img', src=f'{ATTACHMENT_REF_PREFIX}{file_name}', alt=file_name)
            copy_dimensions(image, img)
            image.replace_with(img)
            ctx.count('images_attachment')

        for attachment in soup.find_all('ri:attachment'):
            file_name = attachment.get('ri:filename') or ''
            attachment.replace_with(self._attachment_anchor(soup, file_name, file_name))
            ctx.count('attachment_links')

    def convert_urls(self, soup: BeautifulSoup, ctx: 'ConversionContext') -> None:
        for link in soup.find_all(LINK_TAG):
            url_ref = link.find('ri:url')
            if url_ref is None:
                continue

            url = url_ref.get('ri:value') or ''
            anchor = soup.new_tag('a', href=url)
            anchor.string = link_text(link, url)
            link.replace_with(anchor)
            ctx.count('links_external')

        for image in soup.find_all(IMAGE_TAG):
            url_ref = image.find('ri:url')
            if url_ref is None:
                continue

            img = soup.new_tag('img', src=url_ref.get('ri:value') or '')
            copy_dimensions(image, img)
            image.replace_with(img)
            ctx.count('images_external')

    def convert_user_mentions(self, soup: BeautifulSoup, ctx: 'ConversionContext') -> None:
        """
        Replace user links with plain ``@name`` text.

        Any ac:link still left afterwards (space, blog post or anchor targets)
        degrades to its visible text, and leftover ac:image elements with no
        usable source are dropped.
        """
        for link in soup.find_all(LINK_TAG):
            user = link.find('ri:user')
            if user is None:
                continue

            name = self._user_name(user)
            replace_with_text(link, link_text(link, f'@{name}' if name else ''))
            ctx.count('user_mentions')

        for link in soup.find_all(LINK_TAG):
            replace_with_text(link, link_text(link, link.get_text()))
            ctx.count('links_degraded')

        for image in soup.find_all(IMAGE_TAG):
            image.decompose()
            ctx.count('images_dropped')

    @staticmethod
    def _attachment_anchor(soup: BeautifulSoup, file_name: str, text: str) -> Tag:
        anchor = soup.new_tag('a', attrs={
            'href': f'{ATTACHMENT_REF_PREFIX}{file_name}',
            'data-attachment-name': file_name
        })
        anchor.string = text
        return anchor

    @staticmethod
    def _user_name(user: Tag) -> Optional[str]:
        for attr in ('ri:username', 'ri:userkey', 'ri:account-id'):
            value = user.get(attr)
            if value:
                return value
        return None


__all__ = ['ATTACHMENT_REF_PREFIX', 'LinkProcessor', 'PAGE_REF_PREFIX', 'link_text']
