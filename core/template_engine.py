# core/template_engine.py
"""
Template engine for outreach message bodies
Renders the static first-contact and follow-up bodies, sanitizes generated
HTML before it is mailed, and derives the plain-text alternative part.
"""

import re
import logging
from typing import Any, Dict, Optional

from jinja2 import ChoiceLoader, DictLoader, Environment, FileSystemLoader, StrictUndefined, select_autoescape
from jinja2.exceptions import TemplateError
import bleach
from bleach.css_sanitizer import CSSSanitizer
from bs4 import BeautifulSoup

# Configure logging
logger = logging.getLogger(__name__)

FIRST_CONTACT_TEMPLATE = 'first_contact.html'
FOLLOW_UP_TEMPLATE = 'follow_up.html'

DEFAULT_TEMPLATES = {
    FIRST_CONTACT_TEMPLATE: """\
<p>Hi {{ recruiter_name }},</p>
<p>My name is {{ sender_name }}. I am reaching out because I am interested in
full-stack engineering opportunities at {{ company }} and would love to learn
more about the roles your team is hiring for.</p>
<p>I would be glad to share my background and resume. Would you be open to a
short conversation in the coming days?</p>
<p>Best regards,<br>
{{ sender_name }}<br>
{{ sender_email }}</p>
""",
    FOLLOW_UP_TEMPLATE: """\
<p>Hi {{ recruiter_name }},</p>
<p>I wanted to follow up on my earlier note about full-stack engineering
opportunities at {{ company }}. I remain very interested and would appreciate
any update on open roles that could be a fit.</p>
<p>Thank you for your time, and I look forward to hearing from you.</p>
<p>Best regards,<br>
{{ sender_name }}<br>
{{ sender_email }}</p>
""",
}

CODE_FENCE = re.compile(r'^\s*```[a-zA-Z]*\s*\n?|\n?\s*```\s*$')


class OutreachTemplateEngine:
    """
    Jinja2 rendering plus email-safe HTML handling
    """

    # Email-safe HTML tags
    EMAIL_SAFE_TAGS = [
        'p', 'br', 'strong', 'em', 'b', 'i', 'u',
        'h1', 'h2', 'h3', 'h4',
        'ul', 'ol', 'li', 'a',
        'div', 'span', 'hr', 'blockquote'
    ]

    # Safe attributes for email HTML
    EMAIL_SAFE_ATTRIBUTES = {
        '*': ['style', 'title', 'dir', 'lang'],
        'a': ['href', 'title', 'rel', 'target'],
        'p': ['align'],
        'div': ['align'],
    }

    def __init__(self, template_dir: Optional[str] = None):
        """
        Args:
            template_dir: Optional directory whose first_contact.html /
                follow_up.html override the built-in bodies
        """
        loaders = []
        if template_dir:
            loaders.append(FileSystemLoader(template_dir))
        loaders.append(DictLoader(DEFAULT_TEMPLATES))

        self.env = Environment(
            loader=ChoiceLoader(loaders),
            autoescape=select_autoescape(['html', 'xml']),
            undefined=StrictUndefined,  # Fail on undefined variables
            trim_blocks=True,
            lstrip_blocks=True,
        )

        self.css_sanitizer = CSSSanitizer(
            allowed_css_properties=[
                'color', 'background-color',
                'font-family', 'font-size', 'font-weight', 'font-style',
                'text-align', 'text-decoration',
                'margin', 'margin-top', 'margin-bottom',
                'padding', 'line-height'
            ]
        )
        self.html_cleaner = bleach.Cleaner(
            tags=self.EMAIL_SAFE_TAGS,
            attributes=self.EMAIL_SAFE_ATTRIBUTES,
            protocols=['http', 'https', 'mailto'],
            css_sanitizer=self.css_sanitizer,
            strip=True,  # Strip disallowed tags instead of escaping
            strip_comments=True
        )

        logger.debug(f"OutreachTemplateEngine initialized (template_dir={template_dir})")

    def render(self, template_name: str, variables: Dict[str, Any]) -> str:
        """Render one of the static body templates"""
        try:
            return self.env.get_template(template_name).render(**variables).strip()
        except TemplateError as e:
            logger.error(f"Template rendering failed for {template_name}: {str(e)}")
            raise

    def sanitize_html(self, html_content: str) -> str:
        """
        Make externally produced HTML safe to mail

        Markdown code fences are removed, disallowed markup is stripped, and
        plain text without any markup is wrapped into paragraphs.
        """
        content = CODE_FENCE.sub('', html_content or '').strip()
        if not content:
            return ''

        if '<' not in content:
            paragraphs = [p.strip() for p in re.split(r'\n\s*\n', content) if p.strip()]
            content = ''.join(
                '<p>{}</p>'.format(bleach.clean(p).replace('\n', '<br>')) for p in paragraphs
            )

        return self.html_cleaner.clean(content).strip()

    def html_to_text(self, html_content: str) -> str:
        """
        Convert HTML to plain text with proper formatting for email
        """
        if not html_content:
            return ""

        soup = BeautifulSoup(html_content, 'html.parser')

        for br in soup.find_all('br'):
            br.replace_with('\n')

        for p in soup.find_all('p'):
            p.insert_after('\n\n')

        for li in soup.find_all('li'):
            li.insert_before('- ')
            li.insert_after('\n')

        for link in soup.find_all('a', href=True):
            link_text = link.get_text()
            href = link['href']
            if href != link_text:
                link.replace_with(f"{link_text} ({href})")

        text = soup.get_text()
        text = re.sub(r'[ \t]+', ' ', text)
        text = re.sub(r' *\n *', '\n', text)
        text = re.sub(r'\n{3,}', '\n\n', text)
        return text.strip()
