"""Keyword-based skill extraction from job descriptions."""
from dataclasses import dataclass
from typing import List, Dict, Optional
import re
import logging

logger = logging.getLogger(__name__)


@dataclass
class ExtractedSkill:
    """A vocabulary skill found in a piece of text."""
    skill_name: str
    confidence: float


class SkillExtractor:
    """Finds known technology and methodology keywords in free text.

    Precision is favoured over recall: keywords of two characters or less
    only match as whole tokens, longer keywords match anywhere and gain
    confidence with every mention.
    """

    SKILL_VOCABULARY = {
        'languages': [
            'javascript', 'typescript', 'python', 'java', 'c#', 'c++', 'go',
            'rust', 'ruby', 'php', 'swift', 'kotlin', 'scala', 'r', 'matlab',
            'dart'
        ],
        'frontend': [
            'react', 'angular', 'vue', 'svelte', 'next.js', 'nuxt', 'html',
            'css', 'sass', 'tailwind', 'bootstrap', 'webpack', 'vite'
        ],
        'backend': [
            'node.js', 'express', 'fastify', 'django', 'flask', 'spring',
            'rails', '.net', 'laravel', 'nestjs'
        ],
        'mobile': [
            'react native', 'flutter', 'ios', 'android', 'swiftui'
        ],
        'data': [
            'sql', 'postgresql', 'mysql', 'mongodb', 'redis', 'elasticsearch',
            'dynamodb', 'cassandra', 'neo4j'
        ],
        'cloud_devops': [
            'aws', 'azure', 'gcp', 'docker', 'kubernetes', 'terraform',
            'ansible', 'jenkins', 'github actions', 'ci/cd', 'linux'
        ],
        'ai_ml': [
            'machine learning', 'deep learning', 'nlp', 'computer vision',
            'tensorflow', 'pytorch', 'pandas', 'numpy', 'scikit-learn'
        ],
        'design': [
            'figma', 'sketch', 'adobe xd', 'ui/ux', 'design system'
        ],
        'methods': [
            'agile', 'scrum', 'kanban', 'jira', 'product management',
            'project management', 'leadership'
        ],
        'general': [
            'api', 'rest', 'graphql', 'grpc', 'microservices', 'system design',
            'architecture', 'testing', 'tdd', 'git'
        ],
    }

    SHORT_SKILL_LENGTH = 2
    SHORT_SKILL_CONFIDENCE = 0.7
    BASE_CONFIDENCE = 0.5
    CONFIDENCE_PER_MENTION = 0.1
    MAX_CONFIDENCE = 0.9

    def __init__(self, categories: Optional[List[str]] = None):
        """Initialize the extractor.

        Args:
            categories: Vocabulary categories to use (None for all)
        """
        self.categories = categories or list(self.SKILL_VOCABULARY.keys())
        self.vocabulary = self._build_vocabulary()
        self.patterns = self._compile_patterns()

    def _build_vocabulary(self) -> List[str]:
        """Flatten the active categories, keeping first-seen order."""
        vocabulary: List[str] = []
        for category in self.categories:
            for skill in self.SKILL_VOCABULARY[category]:
                if skill not in vocabulary:
                    vocabulary.append(skill)
        return vocabulary

    def _compile_patterns(self) -> Dict[str, re.Pattern]:
        """Compile one case-insensitive pattern per vocabulary entry."""
        patterns = {}
        for skill in self.vocabulary:
            escaped = re.escape(skill)
            if len(skill) <= self.SHORT_SKILL_LENGTH:
                # Whole-token match; lookarounds also work for entries like "c#"
                patterns[skill] = re.compile(rf'(?<!\w){escaped}(?!\w)', re.IGNORECASE)
            else:
                patterns[skill] = re.compile(escaped, re.IGNORECASE)
        return patterns

    def extract(self, text: Optional[str]) -> List[ExtractedSkill]:
        """Extract vocabulary skills from text.

        Args:
            text: Free text, typically a job description

        Returns:
            One ExtractedSkill per distinct skill found
        """
        if not text:
            return []

        found = []
        for skill in self.vocabulary:
            pattern = self.patterns[skill]
            if len(skill) <= self.SHORT_SKILL_LENGTH:
                if pattern.search(text):
                    found.append(ExtractedSkill(skill, self.SHORT_SKILL_CONFIDENCE))
                continue

            mentions = len(pattern.findall(text))
            if mentions:
                confidence = min(
                    self.MAX_CONFIDENCE,
                    self.BASE_CONFIDENCE + self.CONFIDENCE_PER_MENTION * mentions
                )
                found.append(ExtractedSkill(skill, round(confidence, 2)))

        logger.debug(f"Extracted {len(found)} skills from {len(text)} characters")
        return found


_default_extractor: Optional[SkillExtractor] = None


def create_skill_extractor(categories: Optional[List[str]] = None) -> SkillExtractor:
    """Factory function to create a skill extractor.

    Args:
        categories: Vocabulary categories to use (None for all)

    Returns:
        SkillExtractor: Configured extractor instance
    """
    return SkillExtractor(categories=categories)


def extract_skills(text: Optional[str]) -> List[ExtractedSkill]:
    """Extract skills using the full vocabulary."""
    global _default_extractor
    if _default_extractor is None:
        _default_extractor = create_skill_extractor()
    return _default_extractor.extract(text)
