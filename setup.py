#!/usr/bin/env python3
"""
Setup script for Site Scraper.

Installs the site_scraper package with all dependencies.
"""

from setuptools import setup, find_packages
import os

# Read the README for long description
here = os.path.abspath(os.path.dirname(__file__))
readme_path = os.path.join(here, 'README.md')

if os.path.exists(readme_path):
    with open(readme_path, 'r', encoding='utf-8') as f:
        long_description = f.read()
else:
    long_description = 'Crawl a website, screenshot every page and detect its technology stack.'

# Read requirements
requirements_path = os.path.join(here, 'requirements.txt')
install_requires = []
if os.path.exists(requirements_path):
    with open(requirements_path, 'r', encoding='utf-8') as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith('#'):
                install_requires.append(line)

setup(
    name='site-scraper',
    version='1.0.0',
    author='Site Scraper Team',
    author_email='',
    description='Website crawling and documentation tool with screenshots and technology detection',
    long_description=long_description,
    long_description_content_type='text/markdown',
    url='https://github.com/MacphersonDesigns/site-scraper',
    packages=find_packages(exclude=['tests', 'tests.*']),
    include_package_data=True,
    classifiers=[
        'Development Status :: 4 - Beta',
        'Environment :: Console',
        'Environment :: Web Environment',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Topic :: Internet :: WWW/HTTP :: Indexing/Search',
        'Topic :: Software Development :: Libraries :: Python Modules',
    ],
    python_requires='>=3.9',
    install_requires=install_requires,
    extras_require={
        'test': [
            'pytest>=7.4',
            'pytest-asyncio>=0.23',
        ],
    },
    entry_points={
        'console_scripts': [
            'site-scraper=site_scraper.main:run',
        ],
    },
    keywords=[
        'website',
        'scraper',
        'crawler',
        'screenshot',
        'technology-detection',
        'documentation',
        'archive',
    ],
)
