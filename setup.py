from setuptools import setup, find_packages

setup(
    name='nodeprep',
    version='0.1.0',
    packages=find_packages(exclude=['nodeprep.tests']),
    include_package_data=True,
    package_data={
        'nodeprep.modules.node': ['templates/*.j2'],
    },
    install_requires=[
        'typer[all]',
        'pydantic>=2',
        'pyyaml',
        'jinja2',
        'python-dotenv',
        'requests'
    ],
    extras_require={
        'test': [
            'pytest',
        ],
    },
    entry_points={
        'console_scripts': [
            'nodeprep=nodeprep.cli:app'
        ]
    },
    author='Your Name',
    description='Idempotent preparation of Linux hosts for joining a Kubernetes cluster',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
    ],
    python_requires='>=3.11',
)
