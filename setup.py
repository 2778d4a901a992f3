from setuptools import setup, find_packages

setup(
    name='nodeadm',
    version='0.1.0',
    packages=find_packages(exclude=['nodeadm.tests', 'nodeadm.tests.*']),
    include_package_data=True,
    package_data={
        'nodeadm': ['templates/*.j2'],
    },
    install_requires=[
        'typer>=0.15.0',
        'rich',
        'kubernetes',
        'python-dotenv',
        'requests',
        'pyyaml>=5.3.1',
        'pydantic>=2.0',
        'tenacity>=7.0.0',
        'jinja2',
    ],
    extras_require={
        'dev': [
            'pytest>=6.2.2',
            'pytest-cov>=2.11.1',
        ],
    },
    entry_points={
        'console_scripts': [
            'nodeadm=nodeadm.cli:run'
        ]
    },
    author='Your Name',
    description='Install, configure, upgrade and remove the node components of a hybrid Kubernetes node',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
    ],
    python_requires='>=3.8',
)
