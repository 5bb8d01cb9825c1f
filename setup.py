from setuptools import setup

# Read version from portr/VERSION
with open('portr/VERSION') as f:
    VERSION = f.read().strip()

setup(
    name='portr',
    version=VERSION,
    description='Port inspector with process correlation, a live curses dashboard and safe kill',
    long_description=open('README.md', encoding='utf-8').read(),
    long_description_content_type='text/markdown',
    license='MIT',
    classifiers=[
        'Development Status :: 4 - Beta',
        'Environment :: Console :: Curses',
        'Intended Audience :: Developers',
        'Intended Audience :: System Administrators',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Topic :: System :: Networking :: Monitoring',
    ],
    python_requires='>=3.9',
    packages=['portr', 'portr.dashboard'],
    package_data={'portr': ['VERSION']},
    install_requires=[
        'psutil',
        'requests',
        'pyyaml',
        'rich',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'portr=portr.cli:cli_entry',
        ],
    },
)
